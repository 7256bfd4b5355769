# compliance_model/reporting/__init__.py
