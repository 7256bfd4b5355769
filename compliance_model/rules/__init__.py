# compliance_model/rules/__init__.py
"""
Per-employee rules: residency eligibility and residency fact consumption.
"""
