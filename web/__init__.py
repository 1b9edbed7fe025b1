"""
Web API for the ops console.
"""
