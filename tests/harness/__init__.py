"""Tests for the test network harness."""
