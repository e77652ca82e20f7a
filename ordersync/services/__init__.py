"""
Synchronization services: state stores, pipelines and run control.
"""
