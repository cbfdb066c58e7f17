import pytest

from defenderpin.models import InstallRequest

VENDOR_SCRIPT = """#!/bin/bash
working_folder=".twistlock"
mkdir -p "${working_folder}" && cd "${working_folder}"

${curl} -H "${auth}" ${base_url}/api/v1/scripts/twistlock.cfg -o twistlock.cfg
exit_on_failure $? "Failed to download twistlock.cfg"

${curl} -H "${auth}" ${base_url}/${image_path}/${image_name} -o ${image_name}
exit_on_failure $? "Failed to download Defender image from Console"

docker run -d --name twistlock_defender ${image}
docker run --rm ${image} version

cd ..
rm "${working_folder}"/* && rmdir "${working_folder}"
"""


@pytest.fixture
def vendor_script():
    return VENDOR_SCRIPT


@pytest.fixture
def make_request():
    def factory(**overrides):
        values = {
            "console_address": "console.example.com",
            "api_base": "https://api.example.com/us-2-123",
            "auth_token": "secret-token-value",
        }
        values.update(overrides)
        return InstallRequest(**values)

    return factory
