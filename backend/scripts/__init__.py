"""
Backend Scripts Module

Available scripts:
    - seed_data.py: Creates indexes, state form templates and a demo authorization

Usage:
    python -m scripts.seed_data
"""
