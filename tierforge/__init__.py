"""tierforge -- dependency-ordered provisioning for declarative cloud topologies."""

__version__ = "0.1.0"
