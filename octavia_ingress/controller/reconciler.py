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

from oslo_config import cfg
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import l7policy
from octavia_ingress.controller.drivers import listener
from octavia_ingress.controller.drivers import loadbalancer
from octavia_ingress.controller.drivers import pool
from octavia_ingress.controller.drivers import provisioning
from octavia_ingress.controller.drivers import public_ip
from octavia_ingress.controller.drivers import secret
from octavia_ingress.controller.drivers import security_group
from octavia_ingress.controller import kube
from octavia_ingress.controller import nodes as node_tracker
from octavia_ingress import exceptions as k_exc
from octavia_ingress import utils

CONF = cfg.CONF
LOG = logging.getLogger(__name__)


def get_security_group_tags(route):
    return [k_const.INGRESS_CONTROLLER_TAG,
            '%s_%s' % (route.namespace, route.name)]


class Reconciler(object):
    """Converges the OpenStack resources of an Ingress to its RouteSpec.

    Nothing is remembered between passes, all the state is read back from
    OpenStack by the deterministic names and tags of the resources. The
    load balancer description records the Ingress version realized by the
    last complete pass, which makes repeated passes over an unchanged
    Ingress cheap.
    """

    def __init__(self, poller=None):
        poller = poller or provisioning.ProvisioningStatusPoller()
        self.loadbalancers = loadbalancer.LoadBalancerManager(poller)
        self.listeners = listener.ListenerManager(poller)
        self.pools = pool.PoolManager(poller)
        self.l7policies = l7policy.L7PolicyManager(poller)
        self.security_groups = security_group.SecurityGroupManager()
        self.floating_ips = public_ip.FloatingIPManager()
        self.secrets = secret.SecretBridge()
        self.nodes = node_tracker.NodeSetTracker(self.loadbalancers,
                                                 self.pools)
        self._subnet_cidr = None

    @property
    def subnet_cidr(self):
        if self._subnet_cidr is None:
            os_net = clients.get_network_client()
            subnet = os_net.get_subnet(CONF.octavia.subnet_id)
            self._subnet_cidr = subnet.cidr
        return self._subnet_cidr

    def _get_resource_name(self, route):
        return utils.get_resource_name(route.namespace, route.name,
                                       route.cluster_name)

    def _bridge_secret(self, route, tls):
        cert_data, key_data = kube.get_tls_secret(route.namespace,
                                                  tls.secret_name)
        name = secret.get_secret_name(route, tls.secret_name)
        return self.secrets.ensure(name, cert_data, key_data)

    def _resolve_backends(self, route):
        """Resolves node ports of all the backends before anything changes.

        :returns: tuple of the (pool name, node port) of the default backend
                  or None, and the list of (rule, pool name, node port)
        """
        default = None
        if route.default_backend:
            backend = route.default_backend
            default = (utils.get_pool_name(backend.service, backend.port),
                       kube.get_service_node_port(route.namespace, backend))
        targets = []
        for rule in route.rules:
            backend = rule.backend
            targets.append(
                (rule, utils.get_pool_name(backend.service, backend.port),
                 kube.get_service_node_port(route.namespace, backend)))
        return default, targets

    def ensure_route(self, route):
        """Creates or updates the OpenStack resources of the route.

        :returns: address the Ingress is reachable on or None when the load
                  balancer already realizes this version of the Ingress
        """
        # Annotations are validated before anything gets created.
        is_internal = route.is_internal()
        keep_floating_ip = route.keep_floating_ip()
        if route.tls and clients.get_key_manager_client() is None:
            raise k_exc.InvalidRouteSpec(
                'TLS Ingress not supported because of Key Manager service '
                'unavailable')

        name = self._get_resource_name(route)
        lb = self.loadbalancers.ensure(name, route)
        if self.loadbalancers.is_up_to_date(lb, route):
            LOG.info("Ingress %s not changed", route.key)
            return None

        secret_refs = [self._bridge_secret(route, tls) for tls in route.tls]
        lb_listener = self.listeners.ensure(
            name, lb.id, secret_refs, route.source_ranges(),
            route.listener_timeouts())

        nodes = self.nodes.current_ready_nodes()
        if not nodes:
            raise k_exc.NoAvailableNodes(name)
        default, targets = self._resolve_backends(route)
        node_ports = [node_port for _, _, node_port in targets]

        # L7 policies and shared pools are replaced on every pass, policies
        # go first as they reference the pools.
        self.l7policies.delete_all(lb.id, lb_listener.id)
        self.pools.delete_stale_default(lb.id, lb_listener,
                                        default[0] if default else None)
        if default:
            self.pools.ensure(default[0], lb.id, lb_listener.id, default[1],
                              nodes)
            node_ports.append(default[1])
        self.pools.delete_shared_pools(lb.id)
        pool_ids = {}
        for rule, pool_name, node_port in targets:
            if pool_name not in pool_ids:
                pool_ids[pool_name] = self.pools.ensure(
                    pool_name, lb.id, None, node_port, nodes)
            self.l7policies.create_policy_rule(
                lb.id, lb_listener.id, pool_ids[pool_name], rule.host,
                rule.path, lb_listener.protocol_port)

        if CONF.octavia.manage_security_groups:
            sg_id = self.security_groups.ensure(
                name,
                k_const.SG_DESCRIPTION_TEMPLATE % (route.key,
                                                   route.cluster_name),
                get_security_group_tags(route))
            self.security_groups.ensure_rules(sg_id, self.subnet_cidr,
                                              sorted(set(node_ports)))
            self.security_groups.ensure_port_membership(sg_id, nodes)

        address = lb.vip_address
        floating_network_id = CONF.octavia.floating_network_id
        if not is_internal and floating_network_id:
            address = self.floating_ips.ensure(
                lb.vip_port_id, floating_network_id,
                k_const.FIP_DESCRIPTION_TEMPLATE % (
                    route.name, route.namespace, route.cluster_name),
                route.floating_ip())
        elif not keep_floating_ip:
            self.floating_ips.release(lb.vip_port_id)

        resource_version = kube.update_ingress_status(route, address)
        self.loadbalancers.update_description(
            lb.id, loadbalancer.get_description(route, resource_version))
        LOG.info("OpenStack resources of Ingress %s ensured, address %s",
                 route.key, address)
        return address

    def _should_keep_floating_ip(self, route):
        try:
            return route.keep_floating_ip()
        except k_exc.InvalidRouteSpec:
            # A released floating IP can't be taken back.
            LOG.warning("Invalid %s annotation of Ingress %s, keeping its "
                        "floating IP.",
                        k_const.K8S_ANNOTATION_KEEP_FLOATING_IP, route.key)
            return True

    def delete_route(self, route):
        """Deletes all the OpenStack resources of the route."""
        name = self._get_resource_name(route)
        lb = self.loadbalancers.find(name)

        if lb is not None and not self._should_keep_floating_ip(route):
            self.floating_ips.release(lb.vip_port_id)

        if CONF.octavia.manage_security_groups:
            self.security_groups.delete(get_security_group_tags(route),
                                        self.nodes.current_ready_nodes())

        if lb is not None:
            self.loadbalancers.delete(lb)
        else:
            LOG.debug("Loadbalancer %s of Ingress %s already deleted", name,
                      route.key)

        if route.tls:
            self.secrets.delete_secrets(secret.get_secret_prefix(route))
        LOG.info("OpenStack resources of Ingress %s deleted", route.key)
