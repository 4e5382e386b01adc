"""KaaS: run apps and databases on Kubernetes from a small declarative request."""

__version__ = "0.1.0"
