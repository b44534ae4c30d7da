"""Agents - Collaborators behind each pipeline stage.

Submodules:
    github       GitHub REST client
    classifier   Keyword label classification
    codegen      Code generation (task request, API or mock)
    llm_client   Messages API client with retry and a failure breaker
    reviewer     Quality review and gate
    publisher    Branch, commit, push and draft pull request
"""
