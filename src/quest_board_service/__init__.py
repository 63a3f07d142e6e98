"""Quest Board Service - local job postings with escrowed wallet payments."""

__version__ = "0.1.0"
