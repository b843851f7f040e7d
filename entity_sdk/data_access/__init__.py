# entity_sdk/data_access/__init__.py
