"""Repair suggestions and their application."""

from cardparse.repair.advisor import RepairAdvisor
from cardparse.repair.store import DocumentStore, FileDocumentStore

__all__ = ["RepairAdvisor", "DocumentStore", "FileDocumentStore"]
