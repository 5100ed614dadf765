"""Walk-in queue management system (MQTT-based).

The queue manager is the single authority over the walk-in queue:
- customers register and receive a queue number, position and estimated wait
- staff call, serve, complete or cancel entries from an admin client
- customers near the front are notified once
- an optional hosted language model produces predictions and tips

See README for how to run.
"""
