"""
releasewatch
Metric-driven deployment risk detection and automated response.

Structure:
    releasewatch/
    ├── core/        → MetricSample, Deployment, SampleStore, IngestionEngine
    ├── analytics/   → comparator (pure stats), DeploymentImpactAnalyzer
    ├── alerts/      → TriggerRule, TriggerEngine, actions, history
    ├── services/    → AlertDispatcher (loop), metric feed, collaborator clients
    ├── api/         → FastAPI routers
    └── main.py      → FastAPI app
"""

__version__ = "0.1.0"
