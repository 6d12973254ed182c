"""Errors and warnings raised by the denoising engine."""


class DenoiseError(Exception):
    """Base class for denoising failures."""
    pass


class ConfigurationError(DenoiseError):
    """Missing or invalid tunable, empty input, or unusable error model."""
    pass


class DataError(DenoiseError):
    """Malformed unique sequence within a sample."""

    def __init__(self, message: str, sample: str = None, index: int = None):
        self.sample = sample
        self.index = index
        prefix = ""
        if sample is not None:
            prefix += f"sample '{sample}': "
        if index is not None:
            prefix += f"unique #{index}: "
        super().__init__(prefix + message)


class NonConvergenceWarning(UserWarning):
    """An iteration cap was hit; the best available result is returned."""
    pass
