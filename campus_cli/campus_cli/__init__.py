"""Operator command line for campus billing."""
