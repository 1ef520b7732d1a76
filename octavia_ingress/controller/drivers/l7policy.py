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

import enum
import re

from openstack import exceptions as os_exc
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import base

LOG = logging.getLogger(__name__)

_WILDCARD_PREFIX = '*.'
_LABEL_PATTERN = r'[^.:]+\.'


def host_rule_value(host, port):
    """Regex matching the Host header with or without the listener port.

    A wildcard host like `*.example.com` matches exactly one DNS label in
    place of the `*`.
    """
    if host.startswith(_WILDCARD_PREFIX):
        pattern = _LABEL_PATTERN + re.escape(host[len(_WILDCARD_PREFIX):])
    else:
        pattern = re.escape(host)
    return '^%s(:%d)?$' % (pattern, port)


class L7RuleType(enum.Enum):
    HOST_NAME = 'HOST_NAME'
    PATH = 'PATH'

    @property
    def compare_type(self):
        return _COMPARE_TYPES[self]


_COMPARE_TYPES = {
    L7RuleType.HOST_NAME: k_const.L7_RULE_COMPARE_REGEX,
    L7RuleType.PATH: k_const.L7_RULE_COMPARE_STARTS_WITH,
}


class L7PolicyManager(base.LoadBalancerChildManager):
    """Manages the L7 policies routing host/path pairs to shared pools.

    Policies are not updated in place, every full pass removes all of them
    and creates them again from the Ingress rules.
    """

    def _create_rule(self, loadbalancer_id, policy_id, rule_type, value):
        lbaas = clients.get_loadbalancer_client()
        rule = lbaas.create_l7_rule(policy_id, type=rule_type.value,
                                    compare_type=rule_type.compare_type,
                                    value=value)
        LOG.debug("Created %s rule %s (%s) in policy %s", rule_type.value,
                  rule.id, value, policy_id)
        self._wait_for_active(loadbalancer_id)
        return rule

    def create_policy_rule(self, loadbalancer_id, listener_id, pool_id,
                           host, path, port):
        """Creates a policy sending matching requests to the pool.

        :param host: host to match, no host rule is created when empty
        :param path: path prefix to match, no path rule is created when
                     empty
        :param port: port of the listener the host rule should allow
        :returns: the openstacksdk L7Policy
        """
        lbaas = clients.get_loadbalancer_client()
        policy = lbaas.create_l7_policy(
            listener_id=listener_id,
            action=k_const.L7_POLICY_ACTION_REDIRECT_TO_POOL,
            redirect_pool_id=pool_id,
            description=k_const.L7_POLICY_DESCRIPTION)
        LOG.info("Creating L7 policy %s on listener %s (host: %s, path: %s)",
                 policy.id, listener_id, host, path)
        self._wait_for_active(loadbalancer_id)

        if host:
            self._create_rule(loadbalancer_id, policy.id,
                              L7RuleType.HOST_NAME,
                              host_rule_value(host, port))
        if path:
            self._create_rule(loadbalancer_id, policy.id, L7RuleType.PATH,
                              path)
        return policy

    def delete_all(self, loadbalancer_id, listener_id):
        lbaas = clients.get_loadbalancer_client()
        for policy in list(lbaas.l7_policies(listener_id=listener_id)):
            try:
                lbaas.delete_l7_policy(policy.id)
            except os_exc.NotFoundException:
                continue
            LOG.debug("Deleted L7 policy %s of listener %s", policy.id,
                      listener_id)
            self._wait_for_active(loadbalancer_id)
