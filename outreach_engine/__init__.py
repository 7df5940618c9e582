"""
Outreach Engine
Campaign execution engine for multi-step outbound sequences
"""
