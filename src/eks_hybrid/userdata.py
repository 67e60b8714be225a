import base64
import textwrap

DEFAULT_BOOTSTRAP_ARGUMENTS = "-ContainerRuntime containerd"


def windows_bootstrap_script(
    cluster_name: str,
    region: str,
    bootstrap_arguments: str = DEFAULT_BOOTSTRAP_ARGUMENTS,
) -> str:
    """
    PowerShell user data that joins a Windows instance to an EKS cluster through the
    Start-EKSBootstrap.ps1 script shipped in the EKS-optimized Windows AMI, then reports
    the result with cfn-signal.
    """
    return textwrap.dedent(f"""\
        <powershell>
        [string]$EKSBinDir = "$env:ProgramFiles\\Amazon\\EKS"
        [string]$EKSBootstrapScriptName = 'Start-EKSBootstrap.ps1'
        [string]$EKSBootstrapScriptFile = "$EKSBinDir\\$EKSBootstrapScriptName"
        [string]$cfn_signal = "$env:ProgramFiles\\Amazon\\cfn-bootstrap\\cfn-signal.exe"
        & $EKSBootstrapScriptFile -EKSClusterName {cluster_name} {bootstrap_arguments} 3>&1 4>&1 5>&1 6>&1
        $LastError = if ($?) {{ 0 }} else {{ $Error[0].Exception.HResult }}
        & $cfn_signal --exit-code=$LastError `
          --resource="NodeGroup" `
          --region={region}
        </powershell>""")


def render_windows_bootstrap(
    cluster_name: str,
    region: str,
    bootstrap_arguments: str = DEFAULT_BOOTSTRAP_ARGUMENTS,
) -> str:
    """:return: the bootstrap script base64-encoded, ready to be used as launch template user data"""
    script = windows_bootstrap_script(cluster_name, region, bootstrap_arguments)
    return base64.b64encode(script.encode()).decode()
