"""relhook - release webhook deployment trigger"""
__version__ = "0.1.0"
