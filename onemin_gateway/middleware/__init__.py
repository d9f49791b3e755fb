"""
Middleware Module
"""
