from correlator.evolution.model import EvolutionRecord

__all__ = ["EvolutionRecord"]
