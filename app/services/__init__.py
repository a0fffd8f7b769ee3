"""
Service Organization
====================
Services are organized by their lifecycle and instantiation pattern:

**application/**
  Singleton services managed by ServiceContainer. One instance per application.
  Examples: IrrigationCoreService, ReadingIngestor, AlertAggregator

**utilities/**
  Adapters around external systems that hold no domain state.
  Examples: ForecastService, NotificationDispatcher
"""
