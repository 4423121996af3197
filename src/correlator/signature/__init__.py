from correlator.signature.model import DatasetSignature

__all__ = ["DatasetSignature"]
