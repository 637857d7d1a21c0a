"""
Crop chain kernel: persistence, workflow tables and core services for
tracking crop batches from the field to the warehouse.
"""

__version__ = "0.1.0"
