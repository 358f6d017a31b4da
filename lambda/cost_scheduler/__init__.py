"""Schedule-driven start/stop reconciliation for EC2, RDS and ECS resources."""

__version__ = "1.0.0"
