# services/skillbridge-service/src/apps/core/management/commands/__init__.py
