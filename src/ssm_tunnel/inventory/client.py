"""boto3-backed inventory client."""

import threading
import time
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..common.config import EngineConfig
from ..common.exceptions import UpstreamQueryFailure
from ..common.logging import get_logger
from .models import (
    AgentStatus,
    Instance,
    LoadBalancer,
    LoadBalancerTarget,
    SecurityGroupRule,
    TargetGroup,
)

logger = get_logger(__name__)

T = TypeVar("T")

RUN_SHELL_DOCUMENT = "AWS-RunShellScript"
_TERMINAL_COMMAND_STATES = ("Success", "Failed", "Cancelled", "TimedOut")


def _diagnostic(error: Exception) -> str:
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        code = err.get("Code", "")
        message = err.get("Message", "") or str(error)
        return f"{code}: {message}" if code else message
    return str(error)


class Boto3InventoryClient:
    """Inventory client that queries EC2, SSM, ELBv2 and STS through boto3."""

    def __init__(self, config: EngineConfig, session: boto3.Session | None = None):
        """Initialize the client.

        Args:
            config: Engine configuration (profile and region are used)
            session: Pre-built session, mainly for tests
        """
        self.config = config
        self._session = session or boto3.Session(
            profile_name=config.profile, region_name=config.region
        )
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()
        logger.debug(
            "Inventory client initialized", profile=config.profile, region=config.region
        )

    def _client(self, service: str) -> Any:
        with self._lock:
            if service not in self._clients:
                self._clients[service] = self._session.client(service)
            return self._clients[service]

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        """Run ``fn`` and translate SDK errors into ``UpstreamQueryFailure``."""
        try:
            return fn()
        except (ClientError, BotoCoreError) as e:
            diagnostic = _diagnostic(e)
            logger.warning("Inventory query failed", operation=operation, error=diagnostic)
            raise UpstreamQueryFailure(operation, diagnostic) from e

    def _paginate(self, service: str, operation: str, key: str, **kwargs: Any) -> list[Any]:
        def collect() -> list[Any]:
            paginator = self._client(service).get_paginator(operation)
            items: list[Any] = []
            for page in paginator.paginate(**kwargs):
                items.extend(page.get(key) or [])
            return items

        return self._call(f"{service}:{operation}", collect)

    # -- inventory --------------------------------------------------------

    def describe_agent_status(self) -> dict[str, AgentStatus]:
        infos = self._paginate(
            "ssm", "describe_instance_information", "InstanceInformationList"
        )
        return {
            info["InstanceId"]: AgentStatus.from_ping_status(info.get("PingStatus"))
            for info in infos
            if info.get("InstanceId")
        }

    def list_instances(self) -> list[Instance]:
        reservations = self._paginate("ec2", "describe_instances", "Reservations")

        try:
            statuses = self.describe_agent_status()
        except UpstreamQueryFailure as e:
            # Agent status is advisory; instances are still listed as unknown.
            logger.warning("Agent status unavailable", error=e.diagnostic)
            statuses = {}

        instances = [
            Instance.from_api(raw, statuses.get(raw["InstanceId"], AgentStatus.UNKNOWN))
            for reservation in reservations
            for raw in reservation.get("Instances") or []
        ]
        logger.debug("Listed instances", count=len(instances))
        return instances

    def list_load_balancers(self) -> list[LoadBalancer]:
        raw = self._paginate("elbv2", "describe_load_balancers", "LoadBalancers")
        return [
            LoadBalancer(
                arn=lb["LoadBalancerArn"],
                name=lb.get("LoadBalancerName", ""),
                dns_name=lb.get("DNSName", ""),
            )
            for lb in raw
            if lb.get("LoadBalancerArn")
        ]

    def list_target_groups(self, load_balancer_arn: str) -> list[TargetGroup]:
        raw = self._paginate(
            "elbv2",
            "describe_target_groups",
            "TargetGroups",
            LoadBalancerArn=load_balancer_arn,
        )
        return [
            TargetGroup(
                arn=tg["TargetGroupArn"],
                name=tg.get("TargetGroupName", ""),
                port=tg.get("Port"),
            )
            for tg in raw
            if tg.get("TargetGroupArn")
        ]

    def describe_target_health(self, target_group: TargetGroup) -> list[LoadBalancerTarget]:
        response = self._call(
            "elbv2:describe_target_health",
            lambda: self._client("elbv2").describe_target_health(
                TargetGroupArn=target_group.arn
            ),
        )
        targets: list[LoadBalancerTarget] = []
        for desc in response.get("TargetHealthDescriptions") or []:
            target = desc.get("Target") or {}
            target_id = target.get("Id")
            port = target.get("Port", target_group.port)
            if not target_id or not port:
                continue
            targets.append(
                LoadBalancerTarget(
                    target_id=target_id,
                    port=port,
                    health_state=(desc.get("TargetHealth") or {}).get("State", ""),
                )
            )
        return targets

    def security_groups_for_target(self, target_id: str) -> list[str]:
        if target_id.startswith("i-"):
            filters = [{"Name": "attachment.instance-id", "Values": [target_id]}]
        else:
            filters = [{"Name": "addresses.private-ip-address", "Values": [target_id]}]

        enis = self._paginate(
            "ec2", "describe_network_interfaces", "NetworkInterfaces", Filters=filters
        )
        group_ids: list[str] = []
        for eni in enis:
            for group in eni.get("Groups") or []:
                gid = group.get("GroupId")
                if gid and gid not in group_ids:
                    group_ids.append(gid)
        return group_ids

    def inbound_rules(self, group_ids: list[str]) -> list[SecurityGroupRule]:
        if not group_ids:
            return []
        response = self._call(
            "ec2:describe_security_groups",
            lambda: self._client("ec2").describe_security_groups(GroupIds=list(group_ids)),
        )
        return [
            SecurityGroupRule.from_api(perm)
            for group in response.get("SecurityGroups") or []
            for perm in group.get("IpPermissions") or []
        ]

    # -- remote commands --------------------------------------------------

    def run_shell_command(self, instance_id: str, command: str) -> str:
        ssm = self._client("ssm")
        sent = self._call(
            "ssm:send_command",
            lambda: ssm.send_command(
                InstanceIds=[instance_id],
                DocumentName=RUN_SHELL_DOCUMENT,
                Parameters={"commands": [command]},
            ),
        )
        command_id = (sent.get("Command") or {}).get("CommandId")
        if not command_id:
            raise UpstreamQueryFailure("ssm:send_command", "no CommandId in response")

        for status, output in self._poll_invocation(command_id, instance_id):
            if status in _TERMINAL_COMMAND_STATES:
                logger.debug(
                    "Remote command finished",
                    instance_id=instance_id,
                    command_id=command_id,
                    status=status,
                )
                return output.strip()

        waited = self.config.command_poll_attempts * self.config.command_poll_interval
        raise UpstreamQueryFailure(
            "ssm:get_command_invocation", f"command {command_id} timed out after {waited:g}s"
        )

    def _poll_invocation(self, command_id: str, instance_id: str) -> Iterator[tuple[str, str]]:
        ssm = self._client("ssm")
        for _ in range(self.config.command_poll_attempts):
            time.sleep(self.config.command_poll_interval)
            try:
                invocation = ssm.get_command_invocation(
                    CommandId=command_id, InstanceId=instance_id
                )
            except ClientError as e:
                # Not yet dispatched to the instance
                if e.response.get("Error", {}).get("Code") == "InvocationDoesNotExist":
                    continue
                raise UpstreamQueryFailure("ssm:get_command_invocation", _diagnostic(e)) from e
            except BotoCoreError as e:
                raise UpstreamQueryFailure("ssm:get_command_invocation", _diagnostic(e)) from e
            yield invocation.get("Status", ""), invocation.get("StandardOutputContent", "")

    # -- instance actions -------------------------------------------------

    def start_instance(self, instance_id: str) -> None:
        logger.info("Starting instance", instance_id=instance_id)
        self._call(
            "ec2:start_instances",
            lambda: self._client("ec2").start_instances(InstanceIds=[instance_id]),
        )

    def stop_instance(self, instance_id: str, force: bool = False) -> None:
        logger.info("Stopping instance", instance_id=instance_id, force=force)
        self._call(
            "ec2:stop_instances",
            lambda: self._client("ec2").stop_instances(InstanceIds=[instance_id], Force=force),
        )

    def modify_instance_type(self, instance_id: str, new_type: str) -> None:
        logger.info("Changing instance type", instance_id=instance_id, instance_type=new_type)
        self._call(
            "ec2:modify_instance_attribute",
            lambda: self._client("ec2").modify_instance_attribute(
                InstanceId=instance_id, InstanceType={"Value": new_type}
            ),
        )

    def caller_identity(self) -> dict[str, Any]:
        identity = self._call(
            "sts:get_caller_identity", lambda: self._client("sts").get_caller_identity()
        )
        return {
            "account": identity.get("Account", "?"),
            "arn": identity.get("Arn", "?"),
            "user_id": identity.get("UserId", "?"),
        }
