import pytest

import eks_hybrid
import eks_hybrid.oidc

ISSUER_URL = "https://oidc.eks.mp-north-4.amazonaws.com/id/5EC0FFEE"


def test_issuer_url_from_identities():
    identities = [{"oidcs": [{"issuer": ISSUER_URL}]}]

    assert eks_hybrid.oidc.issuer_url_from_identities(identities) == ISSUER_URL


@pytest.mark.parametrize("identities", [None, []])
def test_issuer_url_from_identities_requires_an_identity(identities):
    with pytest.raises(eks_hybrid.DependencyError, match="has no identities"):
        eks_hybrid.oidc.issuer_url_from_identities(identities)


@pytest.mark.parametrize("oidcs", [[], [{"issuer": ""}]])
def test_issuer_url_from_identities_requires_an_issuer(oidcs):
    with pytest.raises(eks_hybrid.DependencyError, match="has no OIDC issuer"):
        eks_hybrid.oidc.issuer_url_from_identities([{"oidcs": oidcs}])


def test_issuer_host():
    assert eks_hybrid.oidc.issuer_host(ISSUER_URL) == "oidc.eks.mp-north-4.amazonaws.com/id/5EC0FFEE"
    assert eks_hybrid.oidc.issuer_host("oidc.example.com/id/1") == "oidc.example.com/id/1"


def test_oidc_provider_arn():
    assert (
        eks_hybrid.oidc.oidc_provider_arn("123456789012", ISSUER_URL)
        == "arn:aws:iam::123456789012:oidc-provider/oidc.eks.mp-north-4.amazonaws.com/id/5EC0FFEE"
    )
