from __future__ import annotations

import logging

from infrakit.config import load_environment
from infrakit.sample_app import build_workflow_app

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

env = load_environment(".env")

print("#############################################################")
print(f"Deploying to account {env.account} in region {env.region}")

app = build_workflow_app(env=env)
app.synth()
