# fieldsched: recurring field-service scheduling engine
__version__ = "0.1.0"
