"""
Database Module
"""
