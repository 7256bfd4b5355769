# compliance_model/utils/__init__.py
