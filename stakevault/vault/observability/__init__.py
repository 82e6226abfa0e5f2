# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for the vault service.
"""

from .metrics import metrics_registry, update_metrics, bind_event_metrics, render_metrics

__all__ = ['metrics_registry', 'update_metrics', 'bind_event_metrics', 'render_metrics']
