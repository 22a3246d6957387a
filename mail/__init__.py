"""mail/ -- Outbound email collaborator for the account service.

Layer rule: mail/ imports stdlib, core/, and auth.models (for EmailJob). It
never reads accounts or tokens itself; the state machine hands it addresses
and template parameters.
"""
