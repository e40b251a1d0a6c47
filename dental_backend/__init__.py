"""
Dental practice backend.

Layout:
- insurance_estimator.py : insurer / patient split of a procedure fee
- appointment_status.py  : appointment status vocabulary, labels, optional strict graph
- access_control.py      : sections and ordered route rules per role
- insurance_permissions.py : insurance capabilities per role
- permissions.py         : per-user section restrictions and limits
- visit_workflow.py      : in-clinic visit state machine
- rate_limit.py          : fixed-window limiter for the public intake
- db.py / models.py / auth_models.py : SQLAlchemy engine and ORM models
- services.py            : use cases (booking, visits, insurance, notifications)
- api_main.py            : FastAPI app
- cli.py                 : admin / external-system tasks
"""
