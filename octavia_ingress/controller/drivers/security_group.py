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

from openstack import exceptions as os_exc
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import base
from octavia_ingress import utils

LOG = logging.getLogger(__name__)


class SecurityGroupManager(object):
    """Manages the security group opening node ports to the load balancer.

    The group is identified by its tags, it allows TCP traffic from the
    load balancer VIP subnet to the node ports of the Ingress backends and
    it's attached to every Neutron port of every node.
    """

    def find(self, tags):
        os_net = clients.get_network_client()
        return base.find_one('security_group',
                             os_net.security_groups(tags=list(tags)),
                             tags=list(tags))

    def ensure(self, name, description, tags):
        """Ensures the tagged security group exists.

        :returns: ID of the security group
        """
        sg = self.find(tags)
        if sg is not None:
            return sg.id

        os_net = clients.get_network_client()
        with utils.UndoStack() as undo:
            sg = os_net.create_security_group(name=name,
                                              description=description)
            undo.push(os_net.delete_security_group, sg.id)
            # Tags are added one by one, replacing all of them at once
            # doesn't work for security groups in some Neutron versions.
            for tag in tags:
                sg.add_tag(os_net, tag)
        LOG.info("Created security group %s (%s)", name, sg.id)
        return sg.id

    def ensure_rules(self, sg_id, source_cidr, ports):
        """Converges the TCP ingress rules to exactly the given ports."""
        os_net = clients.get_network_client()
        wanted = set(ports)
        for rule in list(os_net.security_group_rules(
                security_group_id=sg_id,
                protocol=k_const.SG_RULE_PROTOCOL_TCP,
                remote_ip_prefix=source_cidr)):
            # Rules of this group always open a single port.
            if rule.port_range_min in wanted:
                wanted.discard(rule.port_range_min)
                continue
            try:
                os_net.delete_security_group_rule(rule.id)
            except os_exc.NotFoundException:
                pass
            LOG.debug("Deleted rule %s for port %s from security group %s",
                      rule.id, rule.port_range_min, sg_id)

        for port in sorted(wanted):
            os_net.create_security_group_rule(
                security_group_id=sg_id,
                direction=k_const.SG_RULE_DIRECTION_INGRESS,
                ethertype=k_const.SG_RULE_ETHERTYPE_IPV4,
                protocol=k_const.SG_RULE_PROTOCOL_TCP,
                port_range_min=port,
                port_range_max=port,
                remote_ip_prefix=source_cidr)
            LOG.debug("Allowed port %s in security group %s", port, sg_id)

    def ensure_port_membership(self, sg_id, nodes, attach=True):
        """Attaches the group to or detaches it from all the node ports."""
        os_net = clients.get_network_client()
        for node in nodes:
            instance_id = utils.get_node_instance_id(node)
            for port in list(os_net.ports(device_id=instance_id)):
                security_groups = list(port.security_group_ids or [])
                if attach and sg_id not in security_groups:
                    security_groups.append(sg_id)
                elif not attach and sg_id in security_groups:
                    security_groups.remove(sg_id)
                else:
                    continue
                os_net.update_port(port.id,
                                   security_groups=security_groups)
                LOG.debug("Security group %s %s port %s of node %s", sg_id,
                          'attached to' if attach else 'detached from',
                          port.id, node['metadata']['name'])

    def delete(self, tags, nodes):
        """Detaches the tagged groups from the nodes and deletes them."""
        os_net = clients.get_network_client()
        for sg in list(os_net.security_groups(tags=list(tags))):
            self.ensure_port_membership(sg.id, nodes, attach=False)
            try:
                os_net.delete_security_group(sg.id)
            except os_exc.NotFoundException:
                continue
            LOG.info("Deleted security group %s (%s)", sg.name, sg.id)
