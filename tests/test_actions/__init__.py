"""
Test Actions Package
Tests for reminder decisions and dose state derivation
"""
