# services/skillbridge-service/src/apps/core/management/__init__.py
