"""CodeArmor - pull request risk and regression analysis."""

__version__ = "1.0.0"
