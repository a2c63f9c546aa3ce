"""Migration workflows run by ``swm migrate``."""
