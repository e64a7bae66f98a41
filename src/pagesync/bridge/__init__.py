"""Messaging towards the externally opened renderer window."""
