"""Declarative document-structure rules: model, loader and checker."""
