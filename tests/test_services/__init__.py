"""
Test Services Package
Tests for the occurrence log, adherence analysis, persistence and the care engine
"""
