"""Relational store and synchronization for FPL data."""
