"""TreeShop pricing & job-costing engine."""

__version__ = "1.0.0"
