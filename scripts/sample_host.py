#!/usr/bin/env python3
"""
Print one live telemetry snapshot per domain as JSON, without touching the database.
Usage:
  python scripts/sample_host.py --config configs/assetwatch.yaml --domain cpu --domain uptime
"""
import os, sys, json, argparse

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import load_cfg
from telemetry_core.domains import DOMAINS
from telemetry_core.host import HostExecutor
from telemetry_core.samplers import HostSampler


def main(cfg_path: str, domains):
    cfg = load_cfg(cfg_path)
    host = cfg.get("host") or {}
    iploc = cfg.get("iplocation") or {}

    executor = HostExecutor(workers=host.get("workers", 2), timeout=host.get("command_timeout_sec", 10.0))
    kwargs = {}
    if host.get("filesystems"): kwargs["filesystems"] = host["filesystems"]
    if host.get("services"): kwargs["services"] = host["services"]
    sampler = HostSampler(
        executor,
        ip_url=iploc.get("ip_url", "https://api.ipify.org"),
        geo_url=iploc.get("geo_url", "http://ip-api.com/json/{ip}"),
        http_timeout=iploc.get("timeout_sec", 5.0),
        **kwargs,
    )
    try:
        snapshot = {dom: sampler.sample(dom) for dom in (domains or DOMAINS)}
    finally:
        executor.shutdown()
    print(json.dumps(snapshot, indent=2, default=str))


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--config", "-c", default="configs/assetwatch.yaml")
    p.add_argument("--domain", "-d", action="append", choices=DOMAINS,
                   help="repeatable; all domains when omitted")
    a = p.parse_args()
    main(a.config, a.domain)
