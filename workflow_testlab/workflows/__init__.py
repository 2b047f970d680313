from .sales_samples import deal_router_graph, meeting_intake_graph

__all__ = ["deal_router_graph", "meeting_intake_graph"]
