"""
Field Activity Call Sampling Service
SQLAlchemy extension instance shared by all model modules.

Models:
    - activity:  Farmer, Activity (+ activity_farmers association)
    - call_task: CallTask, CoolingPeriod
    - sampling:  SamplingConfig, SamplingRun, SamplingAudit
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
