"""HyProxy - a stat-checking relay between a Minecraft client and Hypixel."""

__version__ = "0.3.0"
