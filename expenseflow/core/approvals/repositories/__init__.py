"""Approval engine repositories."""
from .flow_repo import FlowRepository
from .request_repo import RequestRepository

__all__ = ['FlowRepository', 'RequestRepository']
