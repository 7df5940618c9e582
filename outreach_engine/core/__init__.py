"""Core: configuration and clock helpers"""
