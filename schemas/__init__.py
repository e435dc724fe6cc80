"""
Pydantic schemas for the data flowing through the pipeline.

Schemas:
    normalized: NormalizationContext and the NormalizedEvent envelope
    delivery: EndpointConfig, Batch and DeliveryResult

Usage:
    from schemas.normalized import NormalizedEvent, NormalizationContext
    from schemas.delivery import Batch, DeliveryResult, EndpointConfig

Example:
    context = NormalizationContext(
        host="inventory-01",
        source="cloud-inventory:compute-instances",
        index="inventory",
        sourcetype="cloud:inventory:compute-instances",
        timestamp_field="creationTimestamp"
    )

    # Frozen models: routing fields cannot change after construction
    assert context.index == "inventory"
"""

__all__ = [
    "NormalizationContext",
    "NormalizedEvent",
    "EndpointConfig",
    "Batch",
    "DeliveryResult",
]
