"""
cargomap: resilient Rust architecture analysis with semantic gravity ranking.
"""

__version__ = "0.3.0"
