from correlator.training.model import TrainingEpisode

__all__ = ["TrainingEpisode"]
