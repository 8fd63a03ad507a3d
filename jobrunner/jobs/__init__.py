"""Process-level job execution.

Purpose:
- Run the commands of a job file as child processes under a concurrency cap.
- Optionally persist inputs, status, events and a per-job summary under
  runs/<run_id>/.

This keeps long batches observable after the terminal that started them is gone.
"""
