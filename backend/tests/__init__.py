"""Tests for the prior authorization workflow service"""
