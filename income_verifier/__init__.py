"""Income Verifier: password-gated document income verification service."""

__version__ = "1.0.0"
