"""Shell commands run on gateway hosts. Every interpolated value is quoted."""

from shlex import quote

from .config_generator import CONTAINER_STATE_DIR

PORT_SCAN_COMMAND = (
    r"ss -tlnp 2>/dev/null | grep -oP ':\K[0-9]+(?=\s)' | sort -u; "
    r"docker ps --format '{{.Ports}}' 2>/dev/null | grep -oP '\d+(?=->)' | sort -u"
)

INSTANCE_SUBDIRS = ("agents/main/agent", "workspace/memory", "workspace/skills")


def mkdir_command(state_dir: str, extra_dirs: list[str] | None = None) -> str:
    dirs = [f"{state_dir}/{sub}" for sub in INSTANCE_SUBDIRS] + list(extra_dirs or [])
    return "mkdir -p " + " ".join(quote(d) for d in dirs)


def remove_container_command(container: str) -> str:
    return f"docker rm -f {quote(container)} 2>/dev/null; true"


def docker_run_command(
    container: str, state_dir: str, image: str, port: int, memory_limit: str
) -> str:
    return " ".join(
        [
            "docker run -d",
            f"--name {quote(container)}",
            "--network host",
            "--restart unless-stopped",
            f"--memory {quote(memory_limit)}",
            f"--memory-swap {quote(memory_limit)}",
            f"-v {quote(f'{state_dir}:{CONTAINER_STATE_DIR}')}",
            "-e HOME=/home/node",
            "-e TERM=xterm-256color",
            quote(image),
            f"node dist/index.js gateway --bind lan --port {int(port)}",
        ]
    )


def fix_permissions_command(container: str) -> str:
    script = (
        f"mkdir -p {CONTAINER_STATE_DIR}/agents/main/agent && "
        f"chown -R node:node {CONTAINER_STATE_DIR} && "
        f"chown -R node:node {CONTAINER_STATE_DIR}/workspace 2>/dev/null; true"
    )
    return f"docker exec -u root {quote(container)} sh -c {quote(script)}"


def deploy_workspace_command(container: str, state_dir: str) -> str:
    auth_path = "agents/main/agent/auth-profiles.json"
    chown = (
        f"chown node:node {CONTAINER_STATE_DIR}/openclaw.json && "
        f"chown -R node:node {CONTAINER_STATE_DIR}/agents"
    )
    return " && ".join(
        [
            f"docker cp {quote(f'{state_dir}/openclaw.json')} "
            f"{quote(f'{container}:{CONTAINER_STATE_DIR}/openclaw.json')}",
            f"docker cp {quote(f'{state_dir}/{auth_path}')} "
            f"{quote(f'{container}:{CONTAINER_STATE_DIR}/{auth_path}')}",
            f"docker exec -u root {quote(container)} sh -c {quote(chown)}",
        ]
    )


def health_command(container: str, port: int) -> str:
    """Probe the gateway; on failure print the container's last log lines and exit 1."""
    return (
        f"sleep 3 && curl -sf http://127.0.0.1:{int(port)}/health || "
        f"{{ docker logs --tail 20 {quote(container)} 2>&1; exit 1; }}"
    )
