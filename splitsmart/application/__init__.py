"""Use-case orchestration over the domain and runtime layers."""
