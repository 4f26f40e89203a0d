from django.dispatch import Signal

# Sent after the transaction that marked attendance commits.
# Keyword arguments: record_id, session_id, student_id, promotion_id.
attendance_marked = Signal()
