"""Position health monitoring: APY tracking, depeg and APY-drop alerting."""

__version__ = "0.1.0"
