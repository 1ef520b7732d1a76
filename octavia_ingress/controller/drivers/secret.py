# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

import base64
import enum
import re

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from openstack import exceptions as os_exc
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import base
from octavia_ingress import exceptions as k_exc
from octavia_ingress import utils

LOG = logging.getLogger(__name__)

_PEM_BLOCK_RE = re.compile(
    rb'-----BEGIN (?P<type>[A-Z0-9 ]+)-----\r?\n'
    rb'.*?'
    rb'-----END (?P=type)-----', re.DOTALL)


class PrivateKeyType(enum.Enum):
    RSA = 'RSA PRIVATE KEY'
    EC = 'EC PRIVATE KEY'
    PKCS8 = 'PRIVATE KEY'


def load_private_key(pem_data):
    """Loads the first private key block of the PEM data."""
    known = {key_type.value for key_type in PrivateKeyType}
    for match in _PEM_BLOCK_RE.finditer(pem_data):
        if match.group('type').decode('ascii') not in known:
            continue
        try:
            return serialization.load_pem_private_key(match.group(0),
                                                      password=None)
        except (ValueError, TypeError) as ex:
            raise k_exc.InvalidRouteSpec(
                'Cannot load %s: %s' % (match.group('type'), ex))
    raise k_exc.InvalidRouteSpec('Cannot decode supplied PEM data')


def load_certificates(pem_data):
    """Loads the certificate bundle, the server certificate goes first."""
    try:
        certificates = x509.load_pem_x509_certificates(pem_data)
    except ValueError as ex:
        raise k_exc.InvalidRouteSpec('Cannot load certificates: %s' % ex)
    if not certificates:
        raise k_exc.InvalidRouteSpec('No certificates found')
    return certificates


def to_pkcs12(name, cert_data, key_data):
    """Packs the certificate chain and key into base64 encoded PKCS#12."""
    key = load_private_key(key_data)
    certificates = load_certificates(cert_data)
    # The rest of the bundle is considered to be the CA chain.
    pfx = pkcs12.serialize_key_and_certificates(
        name.encode('utf-8'), key, certificates[0], certificates[1:] or None,
        serialization.NoEncryption())
    return base64.b64encode(pfx).decode('ascii')


def get_secret_name(route, secret_name):
    return k_const.BARBICAN_SECRET_NAME_TEMPLATE % (
        route.cluster_name, route.namespace, route.name, secret_name)


def get_secret_prefix(route):
    return utils.get_resource_name(route.namespace, route.name,
                                   route.cluster_name) + '_'


class SecretBridge(object):
    """Copies Kubernetes TLS secrets into Barbican.

    The Barbican secret is looked up by name and created only when it
    doesn't exist yet, its reference is what the listener consumes.
    """

    def _get_client(self):
        key_manager = clients.get_key_manager_client()
        if key_manager is None:
            raise k_exc.InvalidRouteSpec(
                'TLS Ingress not supported because of Key Manager service '
                'unavailable')
        return key_manager

    def find(self, name):
        key_manager = self._get_client()
        return base.find_one('secret', key_manager.secrets(name=name),
                             name=name)

    def ensure(self, name, cert_data, key_data):
        """Ensures the Barbican secret holding the TLS pair exists.

        :returns: the secret reference
        """
        secret = self.find(name)
        if secret is not None:
            return secret.secret_ref

        payload = to_pkcs12(name, cert_data, key_data)
        key_manager = self._get_client()
        secret = key_manager.create_secret(
            name=name,
            payload=payload,
            payload_content_type=k_const.BARBICAN_PAYLOAD_CONTENT_TYPE,
            payload_content_encoding=(
                k_const.BARBICAN_PAYLOAD_CONTENT_ENCODING),
            secret_type=k_const.BARBICAN_SECRET_TYPE)
        LOG.info("Created Barbican secret %s (%s)", name, secret.secret_ref)
        return secret.secret_ref

    def delete_secrets(self, prefix):
        """Deletes all the secrets with the name starting with prefix."""
        key_manager = clients.get_key_manager_client()
        if key_manager is None:
            return
        # Barbican can't filter names by prefix.
        for secret in list(key_manager.secrets()):
            if not (secret.name or '').startswith(prefix):
                continue
            try:
                key_manager.delete_secret(secret)
            except os_exc.NotFoundException:
                continue
            LOG.info("Deleted Barbican secret %s (%s)", secret.name,
                     secret.secret_ref)
