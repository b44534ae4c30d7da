"""Frontends - User interfaces for issueflow.

Submodules:
    cli/    Command-line interface
"""
