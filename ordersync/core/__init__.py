"""
Core configuration: settings, logging and account loading.
"""
