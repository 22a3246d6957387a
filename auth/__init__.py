"""auth/ -- Account credentials: codec, session tokens, store, and state machine.

Layer rule: auth/ imports stdlib, third-party libraries, core/, and the
mail/ Notifier. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
