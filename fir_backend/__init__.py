"""
FIR Service - First Information Report backend
==============================================

Registration, status tracking, search and analytics for police FIRs, with
LLM-assisted extraction of case details from free-text complaints.
"""

__version__ = "1.0.0"
