"""keygate — scoped API key issuance, validation and audit."""

__version__ = "0.1.0"
