"""Kubernetes cluster scan operator and report normalization worker."""
