"""Node agent secure channel: transport binding failover and certificate trust."""

__version__ = "0.1.0"
