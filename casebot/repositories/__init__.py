# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Repository package — re-exports CaseRepository."""
from casebot.repositories.case_repository import CaseRepository

__all__ = ["CaseRepository"]
