"""Test suite for the scheduling assistant."""
