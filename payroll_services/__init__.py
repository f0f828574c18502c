"""
Payroll Services -- imperative shell around the pure kernel and engines.

Owns I/O: document persistence, file storage, side effects, notifications
and the ``DocumentStatusService`` that coordinates them.
"""
